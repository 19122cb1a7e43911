"""
Contracts (data models).

Request/response shapes for the payment gateway integration, shared by the
mock and real HTTP clients so flows rely on stable models, not ad-hoc dicts.
"""
