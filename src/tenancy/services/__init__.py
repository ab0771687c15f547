"""Tenancy services -- directory, resolver, lifecycle, provisioning, audit and purge.

Each service takes its collaborators in the constructor; build_services()
in services.container wires them together.
"""
