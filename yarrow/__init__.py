"""Tenant maintenance-ticket conversation engine."""
