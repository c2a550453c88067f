"""teamtime.integrations — Outbound gateway modules.

All HTTP calls to the TeamTime backend must go through the gateway in this
package, never via bare `requests` calls in services.

Current gateways:
  api_gateway.ApiGateway — TeamTime REST API (/api)
"""
