"""
Real HTTP integration clients.

Must implement the same interface as the mock clients
(payrelay.integrations.contracts.interfaces.PaymentGateway).

Switching:
The selection of mock vs real clients happens in payrelay/api/main.py only.
"""
