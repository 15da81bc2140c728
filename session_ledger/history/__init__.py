"""
Session history models and loading.
"""
