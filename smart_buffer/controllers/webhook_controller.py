"""
Webhook controller exposing the buffering engine to the workflow runtime.
"""
from flask import Blueprint, Flask, jsonify, request
from typing import Optional, Union

from smart_buffer.core import MessageGate, Orchestrator
from smart_buffer.core.message_gate import DUPLICATE_MESSAGE
from smart_buffer.models import Decision, InboundMessage
from smart_buffer.utils import setup_logger, log_error_with_context, ValidationError, RateLimitError


logger = setup_logger(__name__)


class WebhookController:
    """Controller for buffer webhook calls."""

    def __init__(self,
                 app: Union[Flask, Blueprint],
                 orchestrator: Orchestrator,
                 gate: Optional[MessageGate] = None):
        self.app = app
        self.orchestrator = orchestrator
        self.gate = gate

        self._register_routes()

    def _register_routes(self):
        """Register Flask routes."""

        @self.app.route("/buffer/messages", methods=['POST'])
        def receive_message():
            payload = request.get_json(silent=True)

            try:
                message = InboundMessage.from_payload(payload)
                if self.gate is not None:
                    allowed, reason = self.gate.check(message)
                    if reason == DUPLICATE_MESSAGE:
                        return jsonify(Decision.ignored(message.chat_id, reason).to_dict()), 200
                    if not allowed:
                        raise RateLimitError(f"Too many messages for chat {message.chat_id}",
                                             details={'chatId': message.chat_id})

                decision = self.orchestrator.handle(message)

            except ValidationError as e:
                logger.info(f"Rejected message: {e.message}")
                return jsonify({'error': e.error_code, 'message': e.message, 'details': e.details}), 400
            except RateLimitError as e:
                return jsonify({'error': e.error_code, 'message': e.message, 'details': e.details}), 429
            except Exception as e:
                log_error_with_context(logger, e, {'route': 'receive_message'})
                return jsonify({'error': 'INTERNAL_ERROR', 'message': 'Message could not be processed'}), 500

            return jsonify(decision.to_dict()), 200

        @self.app.route("/buffer/<chat_id>/poll", methods=['POST'])
        def poll_buffer(chat_id):
            """Called by the workflow after the WAIT window has elapsed."""
            body = request.get_json(silent=True) or {}
            now = body.get('now')
            try:
                decision = self.orchestrator.poll(chat_id, now=int(now) if now is not None else None)
            except (TypeError, ValueError):
                return jsonify({'error': 'VALIDATION_ERROR', 'message': 'now must be epoch milliseconds'}), 400

            return jsonify(decision.to_dict()), 200

        @self.app.route("/buffer/<chat_id>", methods=['DELETE'])
        def cancel_buffer(chat_id):
            cancelled = self.orchestrator.cancel(chat_id)
            return jsonify({'chatId': chat_id, 'cancelled': cancelled}), 200

        @self.app.route("/buffer/<chat_id>", methods=['GET'])
        def buffer_status(chat_id):
            try:
                status = self.orchestrator.buffer_manager.get_buffer_status(chat_id)
            except Exception as e:
                log_error_with_context(logger, e, {'route': 'buffer_status', 'chat_id': chat_id})
                return jsonify({'error': 'STORE_UNAVAILABLE', 'message': 'Buffer status unavailable'}), 503
            return jsonify(status), 200

        @self.app.route("/health", methods=['GET'])
        def health_check():
            """Health check endpoint."""
            health = self.orchestrator.health()
            health['service'] = 'smart-buffer'
            return jsonify(health), 200

        @self.app.route("/stats", methods=['GET'])
        def stats():
            data = self.orchestrator.get_stats()
            if self.gate is not None:
                data['gate'] = vars(self.gate.get_stats())
            return jsonify(data), 200
