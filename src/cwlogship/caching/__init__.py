from .cache import DeliveryContext, LRUCache

__all__ = ["DeliveryContext", "LRUCache"]
