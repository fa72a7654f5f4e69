"""
Restricted Input Configuration Module

Contains the key combinations suppressed during a locked-down exam and the
violation reason reported for each.
"""

# Keys blocked regardless of modifiers
BLOCKED_KEYS = {
    'f11': 'Attempted to use F11 key',        # toggle fullscreen
    'f5': 'Attempted to reload the page',
}

# Keys blocked only while the surface is locked down
LOCKDOWN_EXIT_KEYS = {
    'escape': 'Attempted to use Escape key',
}

# Ctrl (or Cmd) + key
BLOCKED_CTRL_SHORTCUTS = {
    'w': 'close tab',
    'q': 'quit browser',
    't': 'new tab',
    'n': 'new window',
    'r': 'reload page',
    'tab': 'switch tab',
    'pageup': 'switch tab',
    'pagedown': 'switch tab',
}

# Alt + key
BLOCKED_ALT_SHORTCUTS = {
    'tab': 'switch window',
    'f4': 'close window',
}
