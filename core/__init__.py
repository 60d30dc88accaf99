"""
Shared infrastructure for the referral rewards portal: settings, logging,
the error taxonomy, request context and the record store.
"""
