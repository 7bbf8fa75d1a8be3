"""
Document templates: HTML bodies with {{ placeholder }} fields.
"""
