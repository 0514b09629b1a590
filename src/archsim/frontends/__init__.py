"""Frontends - User interfaces for archsim.

Submodules:
    cli/    Command-line interface
"""
