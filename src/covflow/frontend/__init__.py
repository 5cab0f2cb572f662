"""
Frontend: parses Python source into the tagged tree the analyzers walk.
"""
