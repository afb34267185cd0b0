"""
Passport — Membership Credential Engine

Issues one non-transferable passport per identity, gated by a minimum
balance in an external resource and a signed consent to the current
agreement. Passports can be withdrawn by the holder, revoked by anyone
once the holder's balance drops below a threshold, or revoked by an
administrator.
"""
