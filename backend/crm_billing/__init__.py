"""
CRM billing back office: clients, plans, subscriptions and payments.
"""
__version__ = "0.1.0"
