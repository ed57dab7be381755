"""
Fotota service package.

A FastAPI service for the face-matching photo marketplace: whitelist-gated
registration with a selfie, the user's photo feed with confirm/reject, the
account page and an admin file explorer over the photo bucket. Face matching
runs in an external service fed through a match-request queue.
"""
