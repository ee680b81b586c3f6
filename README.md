# mangapdf

A small HTTP service that collects manga pages (uploaded files, image URLs,
or both) and returns them as one PDF. Each image becomes its own page, with
the page size in points equal to the image size in pixels, so nothing is
scaled or cropped.

## How images are handled

- **JPEG** (`image/jpeg`, `image/jpg`): the original bytes are embedded in
  the PDF unchanged.
- **PNG** (`image/png`): the image is decoded and stored losslessly in the
  PDF; transparency is kept as a soft mask.
- **WebP** (`image/webp`): decoded and re-encoded as JPEG at the configured
  quality. Transparent areas are flattened onto black and 16-bit images are
  reduced to 8 bits.
- **Any other content type**: the data is decoded anyway. If it turns out to
  be PNG it is re-encoded as PNG; if JPEG or WebP, as JPEG. Anything else is
  skipped.

Images that cannot be decoded are skipped; a conversion only fails when no
page at all could be produced.

## Running the server

```
mangapdf-server
```

The server reads its settings from the environment:

| Variable          | Meaning                                                  | Default |
|-------------------|----------------------------------------------------------|---------|
| `LISTEN_ADDRESS`  | `host:port` to listen on; an empty host means all addresses | `:8080` |
| `VERBOSE_LOGGING` | `true` or `1` turns on debug logging                     | off     |

It handles requests on threads, logs to standard error, and stops cleanly on
SIGINT or SIGTERM. An invalid address or a port that cannot be bound makes it
exit with status 1.

## Endpoints

### `GET /health`

Returns `{"status":"ok"}` with status 200.

### `POST /convert`

Send a `multipart/form-data` body with any of these fields:

- `images`: one or more uploaded image files. When a part has no content
  type, or the generic `application/octet-stream`, the type is guessed from
  the file extension (`.jpg`, `.jpeg`, `.png`, `.webp`).
- `image_urls`: a JSON array of URL strings. They are downloaded in
  parallel, following redirects. A URL counts as failed unless it answers 200
  with an `image/*` content type.
- `config`: an optional JSON object. Keys are matched ignoring case and
  underscores, so `jpeg_quality` and `JPEGQuality` are the same key.
  - `jpeg_quality`: integer 1–100, default 90; out-of-range values fall back
    to the default.
  - `num_workers`: number of worker threads, default the number of CPUs;
    values of 0 or less fall back to the default.
  - `output_filename`: default `converted.pdf`. `/` is replaced by `_`, `"`
    is removed, and `.pdf` is appended if missing.

  Unknown keys and `null` values are ignored; a value of the wrong type is an
  error.

Pages appear in the order given: uploaded files first, then URLs in list
order. If some URLs fail but other images are available, the conversion goes
ahead without them.

On success the response is `application/pdf` with a
`Content-Disposition: attachment; filename="..."` header.

On failure the response is JSON of the form `{"error": "...", "details": ...}`:

| Status | When                                                                          |
|--------|-------------------------------------------------------------------------------|
| 400    | Not multipart, invalid `config` or `image_urls`, or no images at all          |
| 405    | Any method other than POST                                                    |
| 422    | Every URL failed and nothing was uploaded (details list each failure), or no image was usable |
| 504    | The conversion was cancelled before it finished                               |
| 500    | Any other conversion failure                                                  |

Any other path answers 404.

## Using it as a library

The conversion pipeline works without the HTTP layer:

- `mangapdf.models`: `Config`, `default_config()`, `ImageSource` (with
  `close()`), `ProcessedImage`, `CancelToken` (`cancel()`, `cancelled`,
  `raise_if_cancelled()`), `content_type_from_filename()` and the errors
  `NoSupportedImagesError`, `UnsupportedContentTypeError` and
  `ConversionCancelled`.
- `mangapdf.fetch.fetch_image(url, index, token)`: download one image into an
  `ImageSource`.
- `mangapdf.processing.process_single_image()` and
  `process_images_concurrently()`: decode and prepare images; failures are
  reported in each result's `error` field.
- `mangapdf.pdfgen.generate_pdf(processed, out, token)`: write prepared
  images to a PDF and return whether any page was written.
- `mangapdf.convert.convert_to_pdf(sources, config, out, token)`: the whole
  pipeline in one call. Raises `NoSupportedImagesError` when nothing usable
  remains and `ConversionCancelled` when the token is cancelled.
- `mangapdf.api.create_app(converter)`: the WSGI application behind the
  server. `mangapdf.api.handle_convert(request, converter, token)` answers a
  single werkzeug `Request`.

## What it does not do

- The server never cancels a conversion on its own: a client disconnecting
  does not stop the work. Cancellation, and with it the 504 answer, only
  happens when a caller passes its own `CancelToken` to `handle_convert` and
  cancels it.
- URL downloads have no timeout.
- There is no authentication and no limit on how many images a request may
  carry.

## Tests

The test suite uses pytest and respx, available through the `test` extra:

```
pip install -e .[test]
pytest
```