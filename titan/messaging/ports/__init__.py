# =============================================================================
# File: titan/messaging/ports/__init__.py
# Description: Ports directory for the Messaging domain
# =============================================================================
# EMPTY - use direct imports:
#   from titan.messaging.ports.persistence_port import MessagePersistencePort
#   from titan.messaging.ports.change_feed_port import ChangeFeedPort
