from .models import Request, ResponseSpec


class PageHandler:
    """Serves one static page on GET / and swallows POST bodies into stdout."""

    def __init__(self, index_path: str) -> None:
        self.index_path = index_path

    def handle(self, req: Request) -> ResponseSpec:
        if req.method == "GET" and req.target == "/":
            return self._serve_index()
        if req.method == "POST":
            return self._accept_post(req)
        return ResponseSpec.text(405, "Method Not Allowed", "Method Not Allowed\n")

    def _serve_index(self) -> ResponseSpec:
        try:
            with open(self.index_path, "rb") as f:
                data = f.read()
        except OSError:
            return ResponseSpec.text(500, "Internal Server Error", "Error loading index.html")

        return ResponseSpec(200, "OK", headers={"Content-Type": "text/html"}, body=data)

    def _accept_post(self, req: Request) -> ResponseSpec:
        body = req.body.decode("utf-8", errors="replace")
        # one write so concurrent connections don't split label and body
        print(f"Request body:\n{body}", flush=True)
        return ResponseSpec.text(200, "OK", "POST request received\n")
