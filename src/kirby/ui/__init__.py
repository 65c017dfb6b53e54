"""
User interface components for Kirby.

- **welcome_ui.py**: Welcome settings embed and the confirmation view used by
  /welcome reset. The view deletes its prompt when it times out.
"""
