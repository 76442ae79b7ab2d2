"""
EDR integrations.
"""
