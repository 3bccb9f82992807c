"""
Interactive Grant Finish Page

The authorization server redirects the user's WebView here with
interact_ref and hash. The page hands both to the embedding app through a
postMessage bridge and closes itself when no bridge is present.
"""
import json

CLOSE_DELAY_MS = 3000

FINISH_PAGE_TEMPLATE = """<!doctype html>
<html>
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>Open Payments - Finish</title>
</head>
<body style="font-family: system-ui, sans-serif; background:#0b0b0c; color:#fff; display:flex; align-items:center; justify-content:center; height:100vh; margin:0;">
  <div style="max-width:520px; text-align:center">
    <h1 style="margin:0 0 12px">Consent received</h1>
    <p style="margin:0 0 24px">Returning to the app…</p>
  </div>
  <script>
    (function () {
      var payload = __PAYLOAD__;
      var message = JSON.stringify(payload);
      if (window.ReactNativeWebView && window.ReactNativeWebView.postMessage) {
        window.ReactNativeWebView.postMessage(message);
        return;
      }
      var target = window.opener || (window.parent !== window ? window.parent : null);
      if (target) {
        target.postMessage(payload, "*");
        return;
      }
      setTimeout(function () { window.close(); }, __CLOSE_DELAY__);
    })();
  </script>
</body>
</html>
"""


def render_finish_page(interact_ref: str, interaction_hash: str) -> str:
    """Render the page with the interaction proof embedded as a JSON literal."""
    payload = json.dumps({"interact_ref": interact_ref, "hash": interaction_hash})
    # Keep the literal from closing the script element
    payload = payload.replace("<", "\\u003c").replace(">", "\\u003e").replace("&", "\\u0026")
    return (
        FINISH_PAGE_TEMPLATE
        .replace("__PAYLOAD__", payload)
        .replace("__CLOSE_DELAY__", str(CLOSE_DELAY_MS))
    )
