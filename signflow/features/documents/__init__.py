"""
Documents rendered from templates and moved through the signing workflow.
"""
