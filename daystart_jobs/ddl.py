"""Database schema DDL for DayStart jobs."""

JOBS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS jobs (
  job_id                   UUID PRIMARY KEY,
  user_id                  TEXT NOT NULL,
  local_date               DATE NOT NULL,

  scheduled_at             TIMESTAMPTZ NOT NULL,
  window_start             TIMESTAMPTZ NOT NULL,
  window_end               TIMESTAMPTZ NOT NULL,

  status                   TEXT NOT NULL DEFAULT 'queued' CHECK (status IN (
                             'queued', 'script_processing', 'script_ready',
                             'audio_processing', 'ready', 'failed', 'failed_missed')),
  attempt_count            INT NOT NULL DEFAULT 0,
  worker_id                TEXT,
  lease_until              TIMESTAMPTZ,

  preferred_name           TEXT,
  location_data            JSONB,
  weather_data             JSONB,
  calendar_events          JSONB,
  encouragement_preference TEXT,
  stock_symbols            TEXT[] NOT NULL DEFAULT '{}',
  include_weather          BOOLEAN NOT NULL DEFAULT TRUE,
  include_news             BOOLEAN NOT NULL DEFAULT TRUE,
  include_sports           BOOLEAN NOT NULL DEFAULT TRUE,
  include_stocks           BOOLEAN NOT NULL DEFAULT TRUE,
  include_calendar         BOOLEAN NOT NULL DEFAULT TRUE,
  include_quotes           BOOLEAN NOT NULL DEFAULT TRUE,
  desired_voice            TEXT NOT NULL,
  desired_length           INT NOT NULL CHECK (desired_length > 0),

  script                   TEXT,
  script_ready_at          TIMESTAMPTZ,
  audio_path               TEXT,
  audio_ready_at           TIMESTAMPTZ,

  downloaded_at            TIMESTAMPTZ,
  failure_reason           TEXT,

  created_at               TIMESTAMPTZ NOT NULL DEFAULT now(),
  updated_at               TIMESTAMPTZ NOT NULL DEFAULT now(),

  CONSTRAINT jobs_user_local_date_key UNIQUE (user_id, local_date),
  CONSTRAINT jobs_window_check CHECK (window_start < scheduled_at AND scheduled_at <= window_end),
  CONSTRAINT jobs_lease_pair_check CHECK ((worker_id IS NULL) = (lease_until IS NULL))
);

-- Lease manager: leasable and in-flight rows by deadline
CREATE INDEX IF NOT EXISTS idx_jobs_worker_queue
ON jobs (status, scheduled_at)
WHERE status IN ('queued', 'script_processing', 'script_ready', 'audio_processing');

CREATE INDEX IF NOT EXISTS idx_jobs_local_date
ON jobs (local_date, scheduled_at);

-- Reaper: unfinished rows past their window
CREATE INDEX IF NOT EXISTS idx_jobs_window_end
ON jobs (window_end)
WHERE status IN ('queued', 'script_processing', 'script_ready', 'audio_processing');
"""

LOGS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS logs (
  id            UUID PRIMARY KEY,
  job_id        UUID REFERENCES jobs (job_id) ON DELETE CASCADE,
  event         TEXT NOT NULL,
  level         TEXT NOT NULL DEFAULT 'info' CHECK (level IN ('debug', 'info', 'warn', 'error')),
  message       TEXT,
  meta          JSONB,
  error_details JSONB,
  created_at    TIMESTAMPTZ NOT NULL DEFAULT now()
);

CREATE INDEX IF NOT EXISTS idx_logs_job
ON logs (job_id, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_logs_level_time
ON logs (level, created_at DESC)
WHERE level IN ('warn', 'error');
"""

CONTENT_BLOCKS_TABLE_DDL = """
CREATE TABLE IF NOT EXISTS content_blocks (
  id                UUID PRIMARY KEY,
  content_type      TEXT NOT NULL CHECK (content_type IN ('news', 'sports', 'stocks')),
  region            TEXT,
  league            TEXT,
  raw_payload       JSONB NOT NULL,
  processed_content JSONB,
  importance_score  INT NOT NULL DEFAULT 5 CHECK (importance_score BETWEEN 1 AND 10),
  published_at      TIMESTAMPTZ,
  created_at        TIMESTAMPTZ NOT NULL DEFAULT now(),
  expires_at        TIMESTAMPTZ NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_content_blocks_lookup
ON content_blocks (content_type, region, created_at DESC);

CREATE INDEX IF NOT EXISTS idx_content_blocks_expires
ON content_blocks (expires_at);
"""

SCHEMA_DDL = JOBS_TABLE_DDL + LOGS_TABLE_DDL + CONTENT_BLOCKS_TABLE_DDL
