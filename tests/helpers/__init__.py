"""
Test helpers for the eventhorizon DynamoDB storage layer.
"""

from .entities import Noted, SampleEntity
from .events import make_events, raw_items

__all__ = [
    'Noted',
    'SampleEntity',
    'make_events',
    'raw_items',
]
