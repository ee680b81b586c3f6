[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "mangapdf"
version = "0.1.0"
description = "HTTP service and library that turn manga page images (JPEG, PNG, WebP) into a single PDF, one image per page"
requires-python = ">=3.10"
keywords = ["manga", "pdf", "comics", "images", "webp", "converter", "http", "wsgi"]
classifiers = [
    "Development Status :: 4 - Beta",
    "Environment :: Web Environment",
    "Intended Audience :: End Users/Desktop",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Multimedia :: Graphics :: Graphics Conversion",
    "Topic :: Internet :: WWW/HTTP :: WSGI :: Application",
]
dependencies = [
    "pillow",
    "httpx",
    "werkzeug",
]

[project.optional-dependencies]
test = [
    "pytest",
    "respx",
]

[project.scripts]
mangapdf-server = "mangapdf.server:main"

[tool.hatch.build.targets.wheel]
packages = ["mangapdf"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"

[tool.ruff]
line-length = 100
target-version = "py310"

[tool.ruff.lint]
select = ["E", "F", "W", "I", "B", "UP"]

[tool.mypy]
python_version = "3.10"
warn_unused_ignores = true
ignore_missing_imports = true
