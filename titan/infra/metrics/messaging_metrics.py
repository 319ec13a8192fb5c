# titan/infra/metrics/messaging_metrics.py
"""Messaging metrics."""

from prometheus_client import Counter

operation_failures = Counter(
    'messaging_operation_failures_total',
    'Remote operations that failed after the local change was applied',
    ['operation']
)

feed_events = Counter(
    'messaging_feed_events_total',
    'Change-feed notifications processed by the feed worker',
    ['table', 'result']  # result: applied/malformed/rejected/error
)

feed_events_backlogged = Counter(
    'messaging_feed_events_backlogged_total',
    'Change-feed notifications held in the overflow backlog because the channel queue was full'
)

messages_sent = Counter(
    'messaging_messages_sent_total',
    'Optimistic messages that finished the delivery pipeline',
    ['result']  # result: confirmed/failed
)
