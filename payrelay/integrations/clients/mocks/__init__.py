"""
Mock integration clients.

These clients return fake (but realistic) gateway payloads without calling any
external API. They are used when:
- gateway sandbox credentials are not available
- we want to exercise the payment flow end-to-end without network access

Mock clients must follow the SAME interface as the real HTTP clients.
"""
