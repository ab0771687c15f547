"""Commerce collaborator -- channels, sellers, roles and administrators.

The tenancy core consumes these through CommerceAdapter; SqlCommerceAdapter
is the implementation backed by the platform database.
"""
