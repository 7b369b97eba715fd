import logging
from typing import Dict, List, Optional

import pandas as pd
from google.cloud import bigquery
from google.oauth2 import service_account


class Client:
    def __init__(self, credentials_json: Dict, project_id: str, dataset: str = 'data'):
        """
        Initialize BigQuery client for catalog and interaction queries

        Args:
            credentials_json: Service account credentials as a dict
            project_id: GCP project id
            dataset: Dataset holding the feed tables
        """
        self.logger = logging.getLogger(self.__class__.__name__)
        self.project_id = project_id
        self.dataset = dataset

        credentials = service_account.Credentials.from_service_account_info(credentials_json)
        self.client = bigquery.Client(credentials=credentials, project=project_id)
        self.logger.info(f"BigQuery client initialized for project {project_id}")

    def table(self, name: str) -> str:
        """Fully qualified, backtick-quoted table reference"""
        return f"`{self.project_id}.{self.dataset}.{name}`"

    def query(self, query: str, params: Optional[List] = None) -> pd.DataFrame:
        """
        Run a parameterized query

        Args:
            query: SQL text using @name parameters
            params: bigquery.ScalarQueryParameter / ArrayQueryParameter list

        Returns:
            Result rows as a DataFrame (empty when no rows)
        """
        job_config = bigquery.QueryJobConfig(query_parameters=params or [])
        query_job = self.client.query(query, job_config=job_config)
        return query_job.result().to_dataframe()
