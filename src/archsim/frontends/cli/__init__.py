"""CLI frontend for archsim.

Commands:
    archsim serve      Start the HTTP runtime
    archsim plan       Show the execution order of a graph file
    archsim analyze    Show the design report of a graph file
    archsim request    Run one simulated request against a graph file

Example:
    $ archsim plan design.json
    $ archsim request design.json GET /users/42 --debug
    $ archsim serve --port 8787
"""

from archsim.frontends.cli.main import main

__all__ = ["main"]
