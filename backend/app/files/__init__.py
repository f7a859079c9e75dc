"""File upload module for the registry backend.

Accepts one image or document per request from an authenticated session,
validates it, stores it under the public root and returns its reference
path.

Supported file types:
- Images: any image/* MIME type
- Documents: docx, doc, pdf
- Filename extension must be one of gif, jpg, jpeg, bmp, png, pdf, docx, doc

Stored files are served statically from /img/ and /document/.
"""
