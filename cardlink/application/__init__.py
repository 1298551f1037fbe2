# Application Layer
# =================
# Use cases that orchestrate infrastructure services:
# - introduction: connection request -> saved contact -> SMS to the card owner
# - analytics: dashboard metrics and map data over an owner's contacts
