"""
Session Guard evaluation service.
"""
