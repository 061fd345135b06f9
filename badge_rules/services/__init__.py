"""
Outbound services.

Contains the client used to persist rules in the badge administration
service once they have passed validation.
"""
