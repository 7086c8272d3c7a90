"""
Services layer - Business logic goes here.
Keep services focused on one concern (clustering, priority, workflow, chat, etc.)

DESIGN PRINCIPLE:
- Services contain business logic, NOT routes
- Routes translate HTTP into service calls and service results into envelopes
- Persistence lives behind the storage package; services never touch Firestore directly
"""
