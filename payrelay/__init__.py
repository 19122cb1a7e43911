"""
Premium payment relay.

Accepts premium subscription payments from the mobile app, forwards them to the
Maviance mobile-money gateway and reconciles the outcome (client polling and
gateway webhooks) into transaction and profile records.
"""

__version__ = "1.0.0"
