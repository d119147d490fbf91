"""
领域计划工厂

每个工厂接收正则匹配结果、解释上下文与 StepServices，返回有序步骤组成的计划。
规则顺序见 registry.default_rules；来电跟进计划由 calls 模块按来电记录生成。
"""
