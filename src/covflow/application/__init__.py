"""
Application layer: the CoverageContext driving a coverage run.
"""
