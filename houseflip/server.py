"""
houseflip - REST API

Endpoints:
  GET  /health              - Liveness
  GET  /health/ledger       - Ledger RPC connectivity
  GET  /fair/commit         - Current server hash (commitment)
  GET  /fair/reveals        - Latest revealed seeds (audit log)
  POST /fair/flip           - Outcome preview (rotates the commitment)
  POST /settle              - Settle a wager
  GET  /settle/<signature>  - Settlement record lookup
  GET  /house-balance       - House reserve and max stake
  GET  /stats               - House statistics
  GET  /burns               - Latest buyback burns
"""

import logging
import time
from typing import Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from .burn_feed import BurnFeed
from .coordinator import SettlementCoordinator
from .errors import InvalidRequest, SettlementError
from .flip_types import FairnessInput, Side, WagerClaim
from .rpc_client import RPCError

log = logging.getLogger(__name__)


def error_response(e: SettlementError):
    return jsonify(e.to_dict()), e.http_status


def internal_error_response(e: Exception):
    return jsonify({
        'error': str(e),
        'reason': 'InternalError',
        'category': 'infrastructure_failure',
        'retryable': True,
    }), 500


def parse_side(value) -> Side:
    if value is None:
        return Side.HEADS
    try:
        return Side.parse(value)
    except ValueError:
        raise InvalidRequest(f"Invalid chosen_side: {value}. Supported: HEADS, TAILS")


def create_app(coordinator: SettlementCoordinator,
               burn_feed: Optional[BurnFeed] = None) -> Flask:
    """Build the Flask app around an already-wired coordinator."""
    app = Flask(__name__)
    CORS(app)  # Allow cross-origin for the flip frontend

    # =========================================================================
    # HEALTH
    # =========================================================================

    @app.route('/health')
    def health():
        """Simple health check - returns ok if server is running"""
        return jsonify({'ok': True, 'timestamp': int(time.time())})

    @app.route('/health/ledger')
    def health_ledger():
        """Check ledger RPC connectivity"""
        try:
            height = coordinator.ledger.block_height()
        except RPCError as e:
            return jsonify({'ok': False, 'error': e.message}), 503
        return jsonify({
            'ok': True,
            'block_height': height,
            'house_address': coordinator.house_address,
            'pending_payout_intents': coordinator.pending_intents(),
        })

    # =========================================================================
    # PROVABLY FAIR
    # =========================================================================

    @app.route('/fair/commit')
    def fair_commit():
        """Current server hash. The seed behind it is revealed on the next flip."""
        return jsonify({'server_hash': coordinator.commitment()})

    @app.route('/fair/flip', methods=['POST'])
    def fair_flip():
        """
        Preview flip with the current seed. Rotates the commitment.

        Request:
        {
            "client_seed": "abc",
            "nonce": 0
        }
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return error_response(InvalidRequest('No data provided'))

        try:
            fairness = FairnessInput(
                client_seed=data.get('client_seed'),
                nonce=data.get('nonce'),
            )
            return jsonify(coordinator.preview(fairness))
        except SettlementError as e:
            return error_response(e)
        except Exception as e:
            log.error(f"Preview flip error: {e}")
            return internal_error_response(e)

    @app.route('/fair/reveals')
    def fair_reveals():
        """Latest revealed seeds (audit log), newest first"""
        try:
            limit = int(request.args.get('limit', 10))
        except ValueError:
            limit = 10
        limit = max(0, min(limit, 50))
        try:
            return jsonify({'reveals': coordinator.recent_reveals(limit)})
        except Exception as e:
            log.error(f"Reveal log error: {e}")
            return internal_error_response(e)

    # =========================================================================
    # SETTLEMENT
    # =========================================================================

    @app.route('/settle', methods=['POST'])
    def settle():
        """
        Settle a wager.

        Request:
        {
            "signature": "5h3...",           # Bettor's transfer to HOUSE
            "expected_lamports": 100000000,  # Amount transferred
            "client_seed": "abc",
            "nonce": 0,
            "chosen_side": "HEADS"           # Optional, default HEADS
        }

        Responses:
            200 - settled (win or loss, with full reveal)
            400 - invalid request or permanent rejection
            409 - signature already settled
            425 - transaction not confirmed yet, retry later
            502 - ledger / payout broadcast failure, retry later
            500 - unexpected failure (reason InternalError)
        """
        data = request.get_json(silent=True)
        if not isinstance(data, dict) or not data:
            return error_response(InvalidRequest('No data provided'))

        try:
            claim = WagerClaim(
                transaction_ref=data.get('signature'),
                claimed_lamports=data.get('expected_lamports'),
            )
            fairness = FairnessInput(
                client_seed=data.get('client_seed'),
                nonce=data.get('nonce'),
                chosen_side=parse_side(data.get('chosen_side')),
            )
            outcome = coordinator.settle(claim, fairness)
        except SettlementError as e:
            return error_response(e)
        except Exception as e:
            log.error(f"Settlement error: {e}")
            return internal_error_response(e)

        return jsonify(outcome.to_dict())

    @app.route('/settle/<signature>')
    def settle_lookup(signature):
        """Get a settled wager by signature"""
        record = coordinator.lookup(signature)
        if record is None:
            return jsonify({'error': 'Settlement not found'}), 404
        return jsonify(record.to_dict())

    # =========================================================================
    # HOUSE
    # =========================================================================

    @app.route('/house-balance')
    def house_balance():
        """HOUSE balance + max bet"""
        try:
            return jsonify(coordinator.house_exposure())
        except SettlementError as e:
            return error_response(e)
        except Exception as e:
            log.error(f"House balance error: {e}")
            return internal_error_response(e)

    @app.route('/stats')
    def stats():
        """Public stats"""
        try:
            return jsonify(coordinator.stats())
        except SettlementError as e:
            return error_response(e)
        except Exception as e:
            log.error(f"Stats error: {e}")
            return internal_error_response(e)

    @app.route('/burns')
    def burns():
        """Latest burns and countdown to the next one"""
        if burn_feed is None:
            return jsonify({'burns': [], 'next_burn_at': None,
                            'seconds_remaining': None, 'interval_seconds': None})
        return jsonify(burn_feed.latest(request.args.get('limit', 10)))

    return app
