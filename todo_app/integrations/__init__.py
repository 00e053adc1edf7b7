"""todo_app.integrations — External service gateway modules.

All outbound calls to AWS messaging must go through a gateway in this
package, never via bare boto3 clients in services or blueprints.

Every call is:
  - Bounded by connect/read timeouts
  - Retried with exponential backoff
  - Logged with the destination name (never the payload)

Current gateways:
  messaging_gateway.AwsMessagingGateway      — SQS sharing queue + SNS updates topic
  messaging_gateway.InMemoryMessagingGateway — recording gateway for tests / local dev
"""
