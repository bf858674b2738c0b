"""AWS Nuker - policy-driven cleanup of idle, untagged and exposed AWS resources."""

__version__ = "0.1.0"
