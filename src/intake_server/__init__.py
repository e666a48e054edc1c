"""intake_server — FastAPI REST API for the intake workflow SDK.

Hosts one ``IntakeWorkflow`` per open form in process memory and exposes
form definitions, lookup lists, step-by-step editing, document uploads
and submission over HTTP.
"""
