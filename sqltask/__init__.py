"""
sqltask – run scripted SQL against a database from a build pipeline.
"""
__version__ = "0.3.0"
