"""Centralized user-facing text for semmark."""

from __future__ import annotations

class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    TITLE = "bold cyan"
    TABLE_HEADER = "bold magenta"


class Messages:
    APP_HELP = "semmark – semantic search over your browser bookmarks."
    HELP_QUERY = "Text used to semantically match bookmarked pages."
    HELP_PAGE = "Result page to display (1-based)."
    HELP_FORMAT = "Output format (rich or porcelain)."
    HELP_FOLDER_IDS = "Folder ids to keep indexed. Omit to untrack everything."
    HELP_BOOKMARKS_PATH = "Path to a Chrome/Chromium `Bookmarks` JSON file."
    HELP_VERBOSE = "Enable debug logging on stderr."
    HELP_CLEAR_YES = "Skip the confirmation prompt."
    HELP_SHOW_CONFIG = "Show current configuration."
    HELP_SET_PROVIDER = "Set the embedding provider (ollama, openai, custom)."
    HELP_SET_MODEL = "Set the embedding model."
    HELP_SET_BASE_URL = "Set the embedding provider base URL."
    HELP_CLEAR_BASE_URL = "Clear the configured base URL."
    HELP_SET_API_KEY = "Persist an API key in ~/.semmark/config.json."
    HELP_CLEAR_API_KEY = "Remove the stored API key."
    HELP_SET_BACKEND = "Set the vector index backend (hnsw, exact, none)."
    HELP_SET_BOOKMARKS = "Set the default bookmarks file path."
    HELP_SET_ANTI_PATTERNS = "Set the anti-pattern phrase list used by the quality gate."

    ERROR_API_KEY_MISSING = (
        "API key is missing. Configure it via `semmark config --set-api-key <token>` "
        "or an environment variable."
    )
    ERROR_OPENAI_PREFIX = "OpenAI API request failed: "
    ERROR_OLLAMA_PREFIX = "Ollama request failed: "
    ERROR_NO_EMBEDDINGS = "Embedding provider returned no embedding."
    ERROR_EMPTY_QUERY = "Query text must not be empty."
    ERROR_PROVIDER_INVALID = "Unsupported provider '{value}'. Allowed values: {allowed}."
    ERROR_CUSTOM_BASE_URL_REQUIRED = "Custom provider requires a base URL."
    ERROR_CUSTOM_MODEL_REQUIRED = "Custom provider requires a model name."
    ERROR_CONFIG_JSON_INVALID = "Config JSON must be an object."
    ERROR_CONFIG_VALUE_INVALID = "Invalid value for config field '{field}'."
    ERROR_FAISS_MISSING = (
        "The hnsw index backend requires faiss. Install `faiss-cpu` or run "
        "`semmark config --set-backend exact`."
    )
    ERROR_BOOKMARKS_MISSING = (
        "No bookmarks file found. Pass --bookmarks or run "
        "`semmark config --set-bookmarks <path>`."
    )
    ERROR_BOOKMARKS_INVALID = "Bookmarks file {path} is not valid JSON."
    ERROR_STORAGE = "Storage transaction failed: {reason}"
    ERROR_INDEX_CORRUPT = "Vector index is inconsistent with stored chunks: {reason}"
    ERROR_SNAPSHOT = "Index snapshot could not be decoded: {reason}"
    ERROR_DIMENSION_MISMATCH = "Embedding dimension {got} does not match index dimension {expected}."
    ERROR_PAGE_INVALID = "Page must be >= 1."

    STATUS_FINDING = "Finding bookmarks..."
    STATUS_UP_TO_DATE = "All selected folders are already indexed."
    STATUS_REMOVING = "Removing {count} bookmark{plural} no longer in selected folders..."
    STATUS_INDEXING = "Indexing {current} of {total}: {title}"
    STATUS_UPDATING_INDEX = "Updating vector index..."
    STATUS_COMPLETE = "Indexing complete."
    STATUS_FAILED = "Sync failed: {reason}"
    STATUS_CLEARED = "All data has been cleared."

    PLACEHOLDER_CHUNK = "[Content could not be scraped...]"

    INFO_NO_RESULTS = "No matching bookmarks found."
    INFO_NO_FOLDERS = "No bookmark folders found."
    INFO_SYNC_SUMMARY = (
        "Added {added}, removed {removed}, dead links {dead}, "
        "title-only {soft}, chunks indexed {chunks}."
    )
    INFO_STATS = "Bookmarks: {bookmarks}\nChunks: {chunks}"
    INFO_CLEAR_CONFIRM = "Delete all indexed bookmarks, chunks and settings?"
    INFO_CLEAR_ABORTED = "Nothing was deleted."
    INFO_API_SAVED = "API key saved."
    INFO_API_CLEARED = "API key cleared."
    INFO_PROVIDER_SET = "Default provider set to {value}."
    INFO_MODEL_SET = "Default model set to {value}."
    INFO_BASE_URL_SET = "Base URL set to {value}."
    INFO_BASE_URL_CLEARED = "Base URL cleared."
    INFO_BACKEND_SET = "Index backend set to {value}."
    INFO_BOOKMARKS_SET = "Bookmarks file set to {value}."
    INFO_ANTI_PATTERNS_SET = "Anti-pattern list set to {value}."
    INFO_CONFIG_SUMMARY = (
        "API key set: {api}\n"
        "Provider: {provider}\n"
        "Model: {model}\n"
        "Base URL: {base_url}\n"
        "Index backend: {backend}\n"
        "Bookmarks file: {bookmarks}\n"
        "Anti-pattern list: {anti_patterns}"
    )
    INFO_PAGE = "Page {page} ({count} result{plural})"

    TABLE_TITLE = "semmark bookmark search results"
    TABLE_FOLDERS_TITLE = "Bookmark folders"
    TABLE_HEADER_INDEX = "#"
    TABLE_HEADER_SIMILARITY = "Similarity"
    TABLE_HEADER_DISTANCE = "Distance"
    TABLE_HEADER_TITLE = "Title"
    TABLE_HEADER_URL = "URL"
    TABLE_HEADER_PREVIEW = "Preview"
    TABLE_HEADER_FOLDER_ID = "Id"
    TABLE_HEADER_FOLDER = "Folder"
    TABLE_HEADER_BOOKMARKS = "Bookmarks"
