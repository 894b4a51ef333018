#!/usr/bin/env python3
"""
Flask API for the Google Maps business scraper.
Every scrape request gets its own orchestrator and browser session.
"""

import asyncio
import os
import time
from datetime import datetime

from flask import Flask, request, jsonify
from flask_cors import CORS
from loguru import logger

from gmaps_scraper.browser_manager import BrowserManager
from gmaps_scraper.config import get_config_summary, load_config
from gmaps_scraper.data_models.models import ExtractionRequest
from gmaps_scraper.errors import GMapsScraperError, RequestValidationError
from gmaps_scraper.orchestrator import GMapsExtractionOrchestrator

SERVICE_NAME = "Google Maps Business Scraper"
SERVICE_VERSION = "1.0.0"

AVAILABLE_ENDPOINTS = [
    "GET / - API status",
    "GET /health - Health check",
    "POST /api/scrape-gmaps - Google Maps scraper",
]

# Initialize Flask app
app = Flask(__name__)
CORS(app)  # Enable CORS for all routes

config = load_config()
started_at = time.time()


def create_orchestrator():
    """Fresh orchestrator per request; runs never share a browser session"""
    return GMapsExtractionOrchestrator(BrowserManager(config), config)


def run_async(coro):
    """Helper function to run async code in Flask"""
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.route('/', methods=['GET'])
def index():
    """API status"""
    return jsonify({
        "message": f"{SERVICE_NAME} API is running!",
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
        "version": SERVICE_VERSION
    })


@app.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        "status": "ok",
        "uptime": round(time.time() - started_at, 1),
        "config": get_config_summary(config),
        "timestamp": datetime.now().isoformat()
    })


@app.route('/api/scrape-gmaps', methods=['POST'])
def scrape_gmaps():
    """
    Scrape Google Maps businesses for a search query

    Expected payload:
    {
        "query": "restaurants in Miami",
        "maxResults": 20,
        "mode": "sequential" | "parallel"
    }
    """
    try:
        payload = request.get_json(silent=True)
        extraction_request = ExtractionRequest.from_payload(payload, concurrency=config.concurrency_limit)
    except RequestValidationError as e:
        return jsonify({
            "success": False,
            "error": e.message
        }), 400

    logger.info(f"🔍 Scrape request: \"{extraction_request.query}\" "
                f"({extraction_request.target_count} results, {extraction_request.mode.value})")

    try:
        orchestrator = create_orchestrator()
        result = run_async(orchestrator.run_with_timeout(extraction_request, config.request_timeout_seconds))
    except GMapsScraperError as e:
        logger.error(f"❌ Scraping error ({e.error_type.value}): {e.message}")
        return jsonify({
            "success": False,
            "error": e.message,
            "errorType": e.error_type.value,
            "timestamp": datetime.now().isoformat()
        }), 500
    except Exception as e:
        logger.exception(f"❌ Unexpected scraping error: {e}")
        return jsonify({
            "success": False,
            "error": str(e) or "Internal server error",
            "timestamp": datetime.now().isoformat()
        }), 500

    logger.info(f"✅ Returning {len(result.records)} businesses for \"{result.query}\"")
    return jsonify(result.to_response())


@app.errorhandler(404)
def not_found(error):
    """Handle 404 errors"""
    return jsonify({
        "success": False,
        "error": "Endpoint not found",
        "available_endpoints": AVAILABLE_ENDPOINTS
    }), 404


@app.errorhandler(500)
def internal_error(error):
    """Handle 500 errors"""
    return jsonify({
        "success": False,
        "error": "Internal server error",
        "message": "An unexpected error occurred"
    }), 500


if __name__ == '__main__':
    # Development server
    logger.info(f"🚀 Starting {SERVICE_NAME} Flask API...")
    for endpoint in AVAILABLE_ENDPOINTS:
        logger.info(f"  {endpoint}")

    app.run(
        host='0.0.0.0',
        port=int(os.environ.get('PORT', 5000)),
        debug=os.environ.get('FLASK_ENV') == 'development'
    )
