"""Core signal pipeline: bars, indicators, feature windows, risk mapping.

This package contains pure business logic with no I/O dependencies
(no database, network or file access). The trade fetch, the trainable
model and all persistence are injected by the application layer (app/).
"""
