"""
Coverage data model and store.
"""
