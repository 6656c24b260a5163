"""audit/ -- Write-only audit trail for HomeInv.

Layer rule: audit/ imports only stdlib. The data-access gateway is injected.
"""
