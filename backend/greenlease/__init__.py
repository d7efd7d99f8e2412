"""
GreenLease - Residential Lease Contracts with Multi-Party Signing
=================================================================

Owners answer a questionnaire, receive a generated lease and collect
signatures from the landlord, the tenant(s) and up to two guarantors.

Components:
- merge: template merge engine (conditional clauses, structural clauses,
  tenant expansion, clause renumbering)
- services: signer roster, invitation lifecycle, deduplication,
  signed-document assembly, PDF and email collaborators
- routes: signature workflow, contract preview/PDF and wizard session APIs

The merged contract text is never persisted. Every view (preview, signing
page, final PDF) re-merges from the template and the stored answers so all
of them stay textually in sync.
"""

__version__ = "1.0.0"
__product__ = "GreenLease"
