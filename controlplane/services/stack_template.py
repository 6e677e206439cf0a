"""CloudFormation template for a dedicated tenant table.

Kept inline so the provisioning worker can upload it without reading files from
its (stateless) runtime filesystem.
"""

DEDICATED_TABLE_TEMPLATE = """AWSTemplateFormatVersion: '2010-09-09'
Description: >
  Dedicated DynamoDB table for a tenant account running in dedicated isolation mode.
  Created at runtime by the register-or-provision worker.

Parameters:
  AccountId:
    Type: String
    Description: Unique account identifier
  AccountName:
    Type: String
    Description: Human-readable account name
  Environment:
    Type: String
    Default: dev
  ProjectName:
    Type: String
    Default: controlplane
  BillingMode:
    Type: String
    Default: PAY_PER_REQUEST
    AllowedValues: [PAY_PER_REQUEST, PROVISIONED]
  ReadCapacity:
    Type: Number
    Default: 5
  WriteCapacity:
    Type: Number
    Default: 5
  EnablePointInTimeRecovery:
    Type: String
    Default: 'true'
    AllowedValues: ['true', 'false']
  EnableDeletionProtection:
    Type: String
    Default: 'true'
    AllowedValues: ['true', 'false']

Conditions:
  IsProvisioned: !Equals [!Ref BillingMode, PROVISIONED]
  PITREnabled: !Equals [!Ref EnablePointInTimeRecovery, 'true']
  DeletionProtected: !Equals [!Ref EnableDeletionProtection, 'true']

Resources:
  AccountTable:
    Type: AWS::DynamoDB::Table
    DeletionPolicy: Retain
    UpdateReplacePolicy: Retain
    Properties:
      TableName: !Sub '${ProjectName}-${Environment}-${AccountId}'
      BillingMode: !Ref BillingMode
      DeletionProtectionEnabled: !If [DeletionProtected, true, false]
      ProvisionedThroughput: !If
        - IsProvisioned
        - ReadCapacityUnits: !Ref ReadCapacity
          WriteCapacityUnits: !Ref WriteCapacity
        - !Ref AWS::NoValue
      PointInTimeRecoverySpecification:
        PointInTimeRecoveryEnabled: !If [PITREnabled, true, false]
      SSESpecification:
        SSEEnabled: true
      StreamSpecification:
        StreamViewType: NEW_AND_OLD_IMAGES
      AttributeDefinitions:
        - AttributeName: PK
          AttributeType: S
        - AttributeName: SK
          AttributeType: S
        - AttributeName: GSI1PK
          AttributeType: S
        - AttributeName: GSI1SK
          AttributeType: S
        - AttributeName: GSI2PK
          AttributeType: S
        - AttributeName: GSI2SK
          AttributeType: S
        - AttributeName: entityType
          AttributeType: S
      KeySchema:
        - AttributeName: PK
          KeyType: HASH
        - AttributeName: SK
          KeyType: RANGE
      GlobalSecondaryIndexes:
        - IndexName: GSI1
          KeySchema:
            - AttributeName: GSI1PK
              KeyType: HASH
            - AttributeName: GSI1SK
              KeyType: RANGE
          Projection:
            ProjectionType: ALL
          ProvisionedThroughput: !If
            - IsProvisioned
            - ReadCapacityUnits: !Ref ReadCapacity
              WriteCapacityUnits: !Ref WriteCapacity
            - !Ref AWS::NoValue
        - IndexName: GSI2
          KeySchema:
            - AttributeName: GSI2PK
              KeyType: HASH
            - AttributeName: GSI2SK
              KeyType: RANGE
          Projection:
            ProjectionType: ALL
          ProvisionedThroughput: !If
            - IsProvisioned
            - ReadCapacityUnits: !Ref ReadCapacity
              WriteCapacityUnits: !Ref WriteCapacity
            - !Ref AWS::NoValue
        - IndexName: GSI-EntityType
          KeySchema:
            - AttributeName: entityType
              KeyType: HASH
            - AttributeName: SK
              KeyType: RANGE
          Projection:
            ProjectionType: ALL
          ProvisionedThroughput: !If
            - IsProvisioned
            - ReadCapacityUnits: !Ref ReadCapacity
              WriteCapacityUnits: !Ref WriteCapacity
            - !Ref AWS::NoValue
      Tags:
        - Key: AccountId
          Value: !Ref AccountId
        - Key: AccountName
          Value: !Ref AccountName
        - Key: Environment
          Value: !Ref Environment
        - Key: IsolationMode
          Value: dedicated
        - Key: ManagedBy
          Value: CloudFormation-Runtime

Outputs:
  TableName:
    Description: Name of the provisioned DynamoDB table
    Value: !Ref AccountTable
  TableArn:
    Description: ARN of the provisioned DynamoDB table
    Value: !GetAtt AccountTable.Arn
  TableStreamArn:
    Description: Change stream ARN
    Value: !GetAtt AccountTable.StreamArn
"""
