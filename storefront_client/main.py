"""
main.py — FastAPI Entry Point for the Payment Return Pages

When the payment processor needs off-site authentication (e.g. bank 3-D
Secure), the browser leaves the storefront and comes back to the return URL
built by the checkout workflow. By then any in-memory checkout state is gone.
This app serves those return URLs and finishes the checkout from the query
string alone.

Responsibilities:
    • Resume payment verification from ``/payment-success`` query parameters
    • Describe the failure view served at ``/payment-failed``
    • Provide system health information
"""

from typing import Optional

from fastapi import Depends, FastAPI, Request

from .logging_config import get_logger, setup_logging
from .storefront import Storefront
from .workflow import CheckoutState

# Initialization
# Configure logging and initialize FastAPI app
setup_logging()
log = get_logger(__name__)
app = FastAPI(title="Storefront Payment Return")


def get_storefront():
    """
    FastAPI dependency yielding a storefront restored from durable state.

    A new instance per request mirrors a cold page load; tests override this
    dependency to inject storefronts wired to the mock services.
    """
    storefront = Storefront()
    try:
        yield storefront
    finally:
        storefront.close()


# Return URL: processor -> storefront
@app.get("/payment-success")
def payment_success(request: Request, orderId: Optional[str] = None,
                    storefront: Storefront = Depends(get_storefront)):
    """
    Completes checkout after the processor redirected back.

    The processor appends ``payment_intent``, ``payment_intent_client_secret``
    and ``redirect_status`` to the return URL; only ``orderId`` comes from the
    storefront itself.

    Args:
        request (Request): Used to read the processor's query parameters.
        orderId (str | None): Order created before the redirect.
        storefront (Storefront): Injected storefront.

    Returns:
        dict: JSON response containing:
            - orderId (str | None): The order being verified.
            - status (str): Final checkout state (SUCCESS / FAILURE / IDLE).
            - error (str | None): Failure reason, if any.
            - navigation (dict | None): Where the UI should go next.
    """
    params = dict(request.query_params)
    log.info(f"[Order: {orderId or 'unknown'}] Payment return received.")

    orchestrator = storefront.checkout()
    state = orchestrator.resume_from_redirect(params)

    navigation = orchestrator.navigation.model_dump() if orchestrator.navigation else None
    return {
        "orderId": orchestrator.order_id,
        "status": state.value,
        "error": orchestrator.error,
        "navigation": navigation,
        "succeeded": state == CheckoutState.SUCCESS,
    }


@app.get("/payment-failed")
def payment_failed(orderId: Optional[str] = None, error: str = "Payment was declined"):
    """
    Data for the failure view: the retained order and the two ways out.

    Returns:
        dict: orderId, error, and the retry / back-to-cart actions.
    """
    actions = [{"action": "back_to_cart", "path": "/cart"}]
    if orderId:
        actions.insert(0, {"action": "retry", "path": f"/checkout?orderId={orderId}"})
    return {"orderId": orderId, "error": error, "actions": actions}


# Health Check Endpoint
@app.get("/health")
def health_check():
    """
    Simple health check endpoint.

    Returns:
        dict: A basic JSON object indicating service availability.
    """
    return {"status": "ok"}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000)
