"""EIP-712 digests, signed envelopes and the signing service."""
