"""DataConnect browser runner.

Out-of-process browser automation sidecar: runs connector scripts against
persistent browser profiles and reports to a parent process over
newline-delimited JSON on stdin/stdout.
"""

__version__ = "1.0.0"
