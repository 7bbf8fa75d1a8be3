"""
Signatures feature.

Signature capture, handwritten signatures placed on a document page, signing
requests sent to external signers, and the certifier's signed PDF upload.
Each signature pins the document content hash it was made against, which is
what verification checks.
"""
