"""
AWS Lambda handler for Identity Reconciliation System
This module adapts the FastAPI application to work with AWS Lambda + API Gateway
"""

import json
import logging

from mangum import Mangum

from main import app

logger = logging.getLogger(__name__)

# Lifespan is off: Lambda freezes the process instead of shutting it down
handler = Mangum(
    app,
    lifespan="off",
    api_gateway_base_path="/",
    text_mime_types=[
        "application/json",
        "text/plain",
    ],
    exclude_headers=["x-amzn-trace-id"]
)


def describe_event(event: dict) -> str:
    """Method and path of an API Gateway v1 or v2 event"""
    if event.get("version") == "2.0":
        http = event.get("requestContext", {}).get("http", {})
        return f"{http.get('method', 'UNKNOWN')} {http.get('path', 'UNKNOWN')}"
    if "httpMethod" in event:
        return f"{event.get('httpMethod', 'UNKNOWN')} {event.get('path', 'UNKNOWN')}"
    return "unknown event format"


def lambda_handler(event, context):
    """
    AWS Lambda entry point

    Args:
        event: API Gateway event data
        context: Lambda runtime context

    Returns:
        API Gateway response format
    """
    logger.info(
        f"Lambda {context.function_name} ({context.aws_request_id}): {describe_event(event)}"
    )

    try:
        response = handler(event, context)
        logger.info(f"Mangum response status: {response.get('statusCode', 'UNKNOWN')}")
        return response

    except Exception as e:
        logger.error(f"Lambda handler error: {str(e)}", exc_info=True)

        return {
            "statusCode": 500,
            "headers": {
                "Content-Type": "application/json",
            },
            "body": json.dumps({
                "error": "InternalServerError",
                "message": "An unexpected error occurred",
                "requestId": context.aws_request_id
            })
        }
