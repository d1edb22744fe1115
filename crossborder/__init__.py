"""
crossborder package

Off-ledger orchestration core for the cross-border payment approval workflow:
ledger gateway, compliance screening, sensitive-field staging, the proposal
acceptance saga and the single-step lifecycle transitions.
"""
