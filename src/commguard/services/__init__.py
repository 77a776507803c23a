"""
Services package: the ModerationService facade and its factory.
"""
