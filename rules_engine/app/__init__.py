"""
Application modules for the rules engine.
"""
