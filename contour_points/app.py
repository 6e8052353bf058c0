import os
import atexit
from flask import Flask, request, jsonify, send_from_directory
from werkzeug.exceptions import RequestEntityTooLarge

# --- Import Core Logic from Separate Files ---
from .config import FLASK_CONFIG, MAX_UPLOAD_BYTES
from .parameters import DetectionParameters, parameter_schema
from .session import DetectionSession, SessionBusy

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = MAX_UPLOAD_BYTES

# --- Global Initialization ---
SESSION = DetectionSession()
SESSION.start()
atexit.register(SESSION.close)

# ============================================================================
# --- STATIC FILE ROUTES ---
# ============================================================================

@app.route('/')
def index():
    """Serves the single-page demo."""
    return send_from_directory(os.path.dirname(os.path.abspath(__file__)), 'index.html')


# ============================================================================
# --- SESSION STATE (/status, /parameters) ---
# ============================================================================

@app.route('/status')
def status():
    return jsonify(SESSION.status())

@app.route('/parameters')
def parameters():
    """Slider defaults and ranges."""
    return jsonify(parameter_schema())


# ============================================================================
# --- IMAGE UPLOAD (/upload) ---
# ============================================================================

@app.route('/upload', methods=['POST'])
def upload():
    try:
        image_file = request.files.get('image')
        loaded = SESSION.upload(image_file)

        payload = SESSION.status()
        if loaded is not None:
            payload['image'] = {'name': loaded.name, 'width': loaded.width, 'height': loaded.height}
        return jsonify(payload)
    except RequestEntityTooLarge:
        return jsonify({'error': f'Image is larger than the {MAX_UPLOAD_BYTES // (1024 * 1024)} MB upload limit.'}), 413
    except SessionBusy as e:
        return jsonify({'error': str(e)}), 409
    except ValueError as e:
        print(f"Error in /upload: {e}")
        return jsonify({'error': str(e)}), 400
    except Exception as e:
        print(f"Error in /upload: {e}")
        return jsonify({'error': f'Image upload failed: {str(e)}'}), 500


# ============================================================================
# --- CONTOUR DETECTION (/detect, /result) ---
# ============================================================================

@app.route('/detect', methods=['POST'])
def detect():
    try:
        params = DetectionParameters.from_form(request.form)
    except ValueError as e:
        return jsonify({'error': str(e)}), 400

    try:
        queued = SESSION.trigger(params)
        payload = SESSION.status()
        payload['queued'] = queued
        return jsonify(payload), (202 if queued else 200)
    except Exception as e:
        print(f"Error in /detect: {e}")
        return jsonify({'error': f'Contour detection failed: {str(e)}'}), 500

@app.route('/result')
def result():
    frame = SESSION.target.snapshot()
    frame['contour_count'] = SESSION.status()['contour_count']
    return jsonify(frame)


# --- LOCAL STARTUP BLOCK ---
if __name__ == "__main__":
    app.run(threaded=True, **FLASK_CONFIG)
