"""
Local invocation harness for Go Lambda handlers.

Stages the handler with the mock-lambda runtime, runs it through the Go
toolchain with a Lambda-like environment, and extracts the handler result
from its output.
"""
