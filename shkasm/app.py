# shkasm/app.py
import io
import os
import logging

from flask import Flask, request, jsonify, send_file
from flask_cors import CORS

from shkasm.shk_assembler import ShkAssembler

logger = logging.getLogger(__name__)

CORS_ORIGINS = [o.strip() for o in os.environ.get("SHKASM_CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

app = Flask(__name__)
CORS(app, resources={r"/api/*": {"origins": CORS_ORIGINS}})


def _sources_from_request():
    """ Returns the list of sources in the JSON body, or None if it is missing/invalid. """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return None
    if isinstance(data.get('assembly'), str):
        return [data['assembly']]
    sources = data.get('sources')
    if isinstance(sources, list) and all(isinstance(s, str) for s in sources):
        return sources
    return None


@app.route('/')
def index():
    return "shk assembler backend is running!"


@app.route('/api/ping', methods=['GET'])
def ping():
    logger.debug("Ping endpoint called")
    return jsonify({"message": "pong"})


@app.route('/api/assemble', methods=['POST'])
def handle_assemble():
    try:
        sources = _sources_from_request()
        if sources is None:
            return jsonify({"errors": [{"message": "Missing 'assembly' (string) or 'sources' (list of strings) in request."}]}), 400
        logger.debug(f"Received {len(sources)} source(s) for assembly")
        # Fresh assembler per request, the label table is per program
        result = ShkAssembler().assemble(sources)
        if result['errors']:
            logger.warning(f"Assembly failed: {result['errors']}")
        else:
            logger.debug(f"Assembly successful. Code length: {len(result['machine_code'])} words")
        return jsonify(result)
    except Exception as e:
        logger.error(f"Error during assembly: {e}", exc_info=True)
        return jsonify({"errors": [{"message": f"Internal server error during assembly: {e}"}]}), 500


@app.route('/api/export/binary', methods=['POST'])
def handle_export_binary():
    """Assembles the request body and returns the raw word stream as a download."""
    try:
        sources = _sources_from_request()
        if sources is None:
            return jsonify({"errors": [{"message": "Missing 'assembly' (string) or 'sources' (list of strings) in request."}]}), 400
        result = ShkAssembler().assemble(sources)
        if result['errors']:
            return jsonify({"errors": result['errors']}), 400
        binary = bytes.fromhex(result['binary'])
        return send_file(io.BytesIO(binary), mimetype="application/octet-stream",
                         as_attachment=True, download_name="a.out")
    except Exception as e:
        logger.error(f"Error during binary export: {e}", exc_info=True)
        return jsonify({"errors": [{"message": f"Internal server error during binary export: {e}"}]}), 500


if __name__ == '__main__':
    app.run(debug=False, port=int(os.environ.get("PORT", 5001)))
