"""
FieldLink CLI - Command-line interface for the notification client.

Commands:
- watch: Follow notifications in real time
- notifications: List, open and mark notifications read
- alerts: Show overdue and upcoming site payments
- config: Show and change client configuration
"""
