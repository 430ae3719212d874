import hashlib
import json
import logging
from django.http import JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods
from django.core.mail import mail_admins
from django.db import IntegrityError, transaction

from .conf import get_section
from .exceptions import PaymentGatewayException
from .gateways.factory import list_available_gateways
from .manager import PaymentManager
from .models import WebhookEvent
from .services import PaymentService

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPES = ('application/x-www-form-urlencoded', 'multipart/form-data')


def _is_form(request):
    return (request.content_type or '').lower() in FORM_CONTENT_TYPES


def _signature_params(request):
    """
    Best-effort view of the body for signature checks.

    Form-posted notifications (PayFast, Ozow) are signed over their fields;
    JSON bodies are decoded only if they parse. Nothing here is trusted
    until the signature has been verified.
    """
    if _is_form(request):
        return request.POST.dict()
    try:
        parsed = json.loads(request.body.decode('utf-8'))
    except (ValueError, UnicodeDecodeError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def _error(message, status):
    return JsonResponse({'success': False, 'message': message}, status=status)


@csrf_exempt
@require_http_methods(["POST"])
def handle_gateway_webhook(request, gateway_name):
    """
    Handle payment notifications from any configured gateway.

    The signature is verified BEFORE the body is parsed. Each notification
    is recorded as a WebhookEvent, so a redelivered event is acknowledged
    without being applied twice.

    URL: /payment/webhook/<gateway_name>/
    """
    gateway_name = (gateway_name or '').lower()
    payload = request.body
    manager = PaymentManager()

    if gateway_name not in list_available_gateways() or not manager.is_gateway_available(gateway_name):
        logger.warning(f"Webhook received for unknown or disabled gateway: {gateway_name}")
        return _error(f'Gateway {gateway_name} is not available', 400)

    webhooks = get_section('webhooks')
    if not webhooks.get('enabled', True):
        return _error('Webhooks are disabled', 503)

    try:
        gateway = manager.gateway(gateway_name)

        # Verify webhook signature BEFORE any processing
        if webhooks.get('signature_verification', True):
            is_valid = gateway.verify_webhook_signature(payload, request.headers, _signature_params(request))
            if not is_valid:
                logger.warning(
                    f"Invalid {gateway_name} webhook signature",
                    extra={'gateway': gateway_name, 'ip': request.META.get('REMOTE_ADDR')}
                )
                return _error('Invalid signature', 401)

        # NOW parse webhook payload after signature is verified
        if _is_form(request):
            callback_data = request.POST.dict()
        else:
            callback_data = json.loads(payload.decode('utf-8'))
            if not isinstance(callback_data, dict):
                return _error('Webhook payload must be a JSON object', 400)

        response = manager.process_callback(gateway_name, callback_data)
        data = response.data or {}

        event_id = data.get('event_id') or hashlib.sha256(payload).hexdigest()
        event_type = data.get('event_type') or ''

        logger.info(f"Received {gateway_name} webhook: {event_type} (ID: {event_id})")

        # Check if event was already processed (idempotency)
        if WebhookEvent.objects.filter(event_id=event_id, gateway=gateway_name).exists():
            logger.info(f"Event {event_id} already processed, skipping")
            return JsonResponse({'success': True, 'message': 'Event already processed'})

        txn = PaymentService.find_transaction(gateway_name, response)
        if txn is None:
            reference = data.get('transaction_id') or data.get('gateway_transaction_id')
            logger.warning(f"{gateway_name} webhook for unknown transaction {reference}")
            mail_admins(
                subject=f"Critical: {gateway_name} webhook for unknown transaction",
                message=(
                    f"A {gateway_name} webhook ({event_type}, ID {event_id}) referenced "
                    f"transaction {reference}, which does not exist."
                ),
                fail_silently=True,
            )
            return _error('Transaction not found', 404)

        try:
            with transaction.atomic():
                WebhookEvent.objects.create(
                    event_id=event_id,
                    gateway=gateway_name,
                    event_type=event_type,
                    payload=callback_data,
                )
                PaymentService.apply_callback(txn, response)
        except IntegrityError:
            # Another delivery of the same event got there first
            logger.info(f"Event {event_id} already processed, skipping")
            return JsonResponse({'success': True, 'message': 'Event already processed'})

        txn.refresh_from_db()
        return JsonResponse({
            'success': True,
            'message': 'Webhook processed',
            'data': {'reference': txn.reference, 'status': txn.status},
        })

    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        logger.error(f"Invalid JSON in {gateway_name} webhook: {str(e)}")
        return _error('Invalid JSON payload', 400)
    except PaymentGatewayException as e:
        if e.error_code == 'transaction_locked':
            logger.info(f"{gateway_name} webhook hit a locked transaction: {e.message}")
            return _error(e.message, 409)
        logger.error(f"Gateway exception in {gateway_name} webhook: {str(e)}")
        return _error(e.message, 400)
    except Exception as e:
        logger.error(f"Error processing {gateway_name} webhook: {str(e)}", exc_info=True)
        mail_admins(
            subject=f"Critical: {gateway_name} webhook processing failed",
            message=f"Error processing {gateway_name} webhook: {str(e)}",
            fail_silently=True,
        )
        return _error('Webhook processing failed', 500)
