"""
User lifecycle service: worker creation, updates, password resets and
deactivation. Every route requires a management role.
"""
