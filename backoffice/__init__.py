"""Conversational back office for a vehicle-repair shop.

Staff manage customers, work orders (OT), invoices and payments through a
Telegram bot.  All data entry runs through guided wizards driven by
``backoffice.engine.WizardEngine``.
"""
