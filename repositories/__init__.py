"""
repositories/ - Data Access Layer
==================================
Each repository encapsulates all SQL queries for one store: invoices (with
their expenses), the invoice number counter, and the client directory.
Repositories return domain model objects, never raw rows.
"""
