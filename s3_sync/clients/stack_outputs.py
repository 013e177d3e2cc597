"""
CloudFormation client for resolving bucket names from deployed stack outputs.

Handles lookups of a named output of the stack the sync targets were deployed
with, so a target can reference its bucket through `bucketNameKey` instead of
a literal name.
"""

import logging
from typing import Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..exceptions import OutputNotFound, ResolutionError
from ..models.config import AwsConfig
from .s3_manager import create_session


class StackOutputResolver:
    """
    Resolves output keys against the outputs of a single CloudFormation stack.
    """

    def __init__(self, config: AwsConfig, stack_name: Optional[str] = None,
                 session: Optional[boto3.Session] = None):
        """
        Initialize the resolver.

        Args:
            config: AWS connection settings
            stack_name: Stack whose outputs are searched, defaults to config.stack_name
            session: Optional preconfigured boto3 session
        """
        self.stack_name = stack_name or config.stack_name
        self.logger = logging.getLogger(__name__)
        session = session or create_session(config)
        self.client = session.client('cloudformation')

    def _describe_outputs(self) -> Dict[str, str]:
        """
        Fetch the outputs of the configured stack.

        Raises:
            ResolutionError: If no stack name is configured or the call fails
        """
        if not self.stack_name:
            raise ResolutionError("No stack name configured for output lookup (set S3SYNC_STACK_NAME)")

        try:
            self.logger.debug(f"Describing stack {self.stack_name}")
            response = self.client.describe_stacks(StackName=self.stack_name)
        except (ClientError, BotoCoreError) as e:
            error_msg = f"Failed to describe stack {self.stack_name}: {str(e)}"
            self.logger.error(error_msg)
            raise ResolutionError(error_msg) from e

        stacks = response.get('Stacks') or []
        if not stacks:
            raise ResolutionError(f"Stack {self.stack_name} not found")

        return {
            output['OutputKey']: output['OutputValue']
            for output in stacks[0].get('Outputs') or []
        }

    def resolve_output(self, output_key: str) -> str:
        """
        Resolve a single stack output to its value.

        Args:
            output_key: OutputKey to look up

        Returns:
            The output's value

        Raises:
            OutputNotFound: If the stack has no output with that key
            ResolutionError: If the stack itself cannot be described
        """
        outputs = self._describe_outputs()
        if output_key not in outputs:
            self.logger.warning(f"Output {output_key} not found in stack {self.stack_name}")
            raise OutputNotFound(output_key, self.stack_name)

        self.logger.info(f"Resolved stack output {output_key} -> {outputs[output_key]}")
        return outputs[output_key]
