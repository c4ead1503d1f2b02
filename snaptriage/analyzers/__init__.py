"""
Analyzers that turn an error screenshot into a structured diagnosis.
"""
