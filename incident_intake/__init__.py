"""
incident_intake package

Backend for the store incident form:
- Mint Google service-account tokens (RS256 JWT-bearer flow)
- Read reference data and append responses in Google Sheets
- Fan a submission out to the master and category sheets
- Relay a summary to Telegram chats
"""

__version__ = "1.0.0"
