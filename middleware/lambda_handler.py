"""
AWS Lambda Handler

Lambda entry point using the Mangum adapter to run the FastAPI app behind
API Gateway (or a Lambda function URL).
"""

from mangum import Mangum

from contact_sync.main import app
from contact_sync.utils.logging_config import get_logger

logger = get_logger(__name__)


# api_gateway_base_path "/" lets Mangum strip stage prefixes itself
handler = Mangum(app, lifespan="off", api_gateway_base_path="/")


def lambda_handler(event, context):
    """
    AWS Lambda handler with invocation logging.

    Args:
        event: API Gateway event containing HTTP request details
        context: Lambda context with runtime information

    Returns:
        API Gateway response format
    """
    request_context = event.get("requestContext", {})
    logger.info(
        "Lambda invocation started",
        extra={
            "request_id": context.aws_request_id,
            "function_name": context.function_name,
            "remaining_time": context.get_remaining_time_in_millis(),
            "http_method": request_context.get("http", {}).get("method")
            or event.get("httpMethod"),
            "raw_path": event.get("rawPath") or event.get("path"),
        },
    )

    try:
        response = handler(event, context)
    except Exception as e:
        logger.error(
            f"Lambda invocation failed: {e}",
            extra={
                "request_id": context.aws_request_id,
                "error": str(e),
                "error_type": type(e).__name__,
            },
        )
        raise

    logger.info(
        "Lambda invocation completed",
        extra={
            "request_id": context.aws_request_id,
            "status_code": response.get("statusCode"),
        },
    )
    return response


__all__ = ["handler", "lambda_handler"]
