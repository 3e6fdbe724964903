"""
relay package

Bridges AWS SQS (pull) and AWS SNS HTTP subscriptions (push) into a single
downstream HTTP sink.
"""

__version__ = "0.1.0"
