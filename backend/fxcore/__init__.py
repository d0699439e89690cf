"""Core signal and risk logic for the FX trading engine.

This package contains pure business logic with no I/O dependencies
(no network, disk or clock access). Price bars go in, order intents and
discarded-signal events come out. Broker access lives in fxapp/.
"""
